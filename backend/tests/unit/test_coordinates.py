"""
坐标模型单元测试

每个模块完成后必须运行：pytest tests/unit/test_coordinates.py -v
"""

import pytest

from docfidelity.models import BoundingBox
from docfidelity.render import from_pixel_box, to_pixel_box, to_render_rect


class TestToRenderRect:
    """归一化 → 百分比"""

    def test_total_field_position(self):
        """测试典型字段换算"""
        rect = to_render_rect(BoundingBox(ymin=300, xmin=500, ymax=320, xmax=700))
        assert rect.left == 50
        assert rect.top == 30
        assert rect.width == 20
        assert rect.height == 2

    @pytest.mark.parametrize(
        "box",
        [
            BoundingBox(ymin=1, xmin=3, ymax=999, xmax=7),
            BoundingBox(ymin=0, xmin=0, ymax=1, xmax=1),
            BoundingBox(ymin=123, xmin=456, ymax=789, xmax=1000),
        ],
    )
    def test_width_height_exact(self, box: BoundingBox):
        """测试宽高 = 差值 / 10"""
        rect = to_render_rect(box)
        assert rect.width == (box.xmax - box.xmin) / 10
        assert rect.height == (box.ymax - box.ymin) / 10

    def test_full_page_box(self):
        """测试整页框可以达到100%"""
        rect = to_render_rect(BoundingBox(ymin=0, xmin=0, ymax=1000, xmax=1000))
        assert (rect.top, rect.left, rect.width, rect.height) == (0, 0, 100, 100)

    def test_css(self):
        """测试CSS输出"""
        rect = to_render_rect(BoundingBox(ymin=300, xmin=500, ymax=320, xmax=700))
        assert rect.to_css() == "top:30%;left:50%;width:20%;height:2%"


class TestPixelBox:
    """像素换算"""

    def test_to_pixel_box(self):
        """测试归一化 → 像素"""
        box = BoundingBox(ymin=300, xmin=500, ymax=320, xmax=700)
        assert to_pixel_box(box, 400, 300) == (200, 90, 280, 96)

    def test_from_pixel_box(self):
        """测试像素 → 归一化"""
        box = from_pixel_box(200, 90, 280, 96, 400, 300)
        assert (box.ymin, box.xmin, box.ymax, box.xmax) == (300, 500, 320, 700)

    def test_from_pixel_box_clamped_and_sorted(self):
        """测试越界截断与颠倒修正"""
        box = from_pixel_box(500, -10, 100, 50, 400, 300)
        assert (box.xmin, box.xmax) == (250, 1000)
        assert (box.ymin, box.ymax) == (0, 167)

    def test_from_pixel_box_degenerate_widened(self):
        """测试零面积框至少保留1个单位"""
        box = from_pixel_box(100, 100, 100, 100, 400, 300)
        assert box.width == 1
        assert box.height == 1

    def test_from_pixel_box_invalid_size(self):
        """测试无效图像尺寸"""
        with pytest.raises(ValueError):
            from_pixel_box(0, 0, 10, 10, 0, 300)
