"""
模块接口契约 - 定义各模块的抽象接口与异常分类

设计原则：
1. 模块间通过接口通信，不直接依赖具体实现
2. 每个接口定义清晰的输入输出类型
3. 外部服务错误在网关边界统一翻译为本模块异常

使用方式：
    from docfidelity.interfaces import IFieldDetector

    class MyDetector(IFieldDetector):
        def detect_fields(self, image_bytes: bytes, mime_type: str, page_index: int = 0) -> DetectionResult:
            ...
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import (
        BulkGenerationJob,
        DetectionResult,
        DocumentTemplate,
        RasterPage,
        TemplateField,
        WorkspaceContext,
    )


# ============================================================================
# 外部识别服务接口
# ============================================================================

class IFieldDetector(ABC):
    """字段检测接口 - 识别母版图像中的动态字段"""

    @abstractmethod
    def detect_fields(
        self, image_bytes: bytes, mime_type: str, page_index: int = 0
    ) -> DetectionResult:
        """
        检测图像中的动态字段

        Args:
            image_bytes: 已压缩的分析用图像
            mime_type: 图像MIME类型
            page_index: 字段所属页（写入 pageIndex）

        Returns:
            建议标题与字段列表（rect为0-1000归一化坐标）

        Raises:
            ExternalServiceError: 服务不可用/载荷过大/分析失败
        """
        ...


class IMappingService(ABC):
    """表头映射接口 - 模板字段到表格列的建议映射"""

    @abstractmethod
    def suggest_mapping(
        self, field_names: list[str], headers: list[str]
    ) -> dict[str, str | None]:
        """
        建议字段映射

        Returns:
            每个字段名都作为键出现；无匹配为None
        """
        ...


class IFormFiller(ABC):
    """AI填充接口"""

    @abstractmethod
    def fill_form(
        self, template_name: str, fields: list[TemplateField], instruction: str
    ) -> dict[str, str]:
        """按自然语言指令建议字段值（失败返回空字典）"""
        ...


# ============================================================================
# 模板制作与存储接口
# ============================================================================

class IRasterizer(ABC):
    """栅格化接口 - PDF/图片转母版图像"""

    @abstractmethod
    def rasterize(self, data: bytes, mime_type: str, page_index: int = 0) -> RasterPage:
        """
        栅格化源文件的指定页

        Returns:
            高清母版图 + 压缩分析图（同一页面区域）

        Raises:
            RenderError: 源文件无法读取
        """
        ...


class ITemplateStore(ABC):
    """模板仓库接口"""

    @abstractmethod
    def add(self, ctx: WorkspaceContext, template: DocumentTemplate) -> DocumentTemplate:
        """保存新模板"""
        ...

    @abstractmethod
    def get(self, ctx: WorkspaceContext, template_id: str) -> DocumentTemplate | None:
        """获取模板"""
        ...

    @abstractmethod
    def update(
        self,
        ctx: WorkspaceContext,
        template_id: str,
        changes: str,
        author: str,
        **updates: Any,
    ) -> DocumentTemplate:
        """更新模板内容（版本号+1并追加历史）"""
        ...

    @abstractmethod
    def delete(self, ctx: WorkspaceContext, template_id: str) -> bool:
        """删除模板"""
        ...


# ============================================================================
# 任务管理接口
# ============================================================================

class IJobManager(ABC):
    """任务管理器接口"""

    @abstractmethod
    def create_job(self, template: DocumentTemplate, total_records: int) -> BulkGenerationJob:
        """创建任务"""
        ...

    @abstractmethod
    def get_job(self, job_id: str) -> BulkGenerationJob | None:
        """获取任务"""
        ...

    @abstractmethod
    def update_job(self, job: BulkGenerationJob) -> None:
        """更新任务状态"""
        ...

    @abstractmethod
    def cancel_job(self, job_id: str) -> bool:
        """取消任务（丢弃记录与中间产物）"""
        ...


class IPackager(ABC):
    """打包器接口"""

    @abstractmethod
    def package(
        self, job: BulkGenerationJob, entries: list[tuple[str, bytes]]
    ) -> str:
        """
        打包批量产物

        Args:
            job: 任务对象
            entries: (归档内文件名, 内容) 列表，顺序即归档顺序

        Returns:
            可下载句柄（URI）
        """
        ...


# ============================================================================
# 异常定义
# ============================================================================

class FidelityError(Exception):
    """基础异常"""
    pass


class ValidationError(FidelityError):
    """校验错误（可本地恢复，逐条列出）"""

    def __init__(
        self,
        message: str,
        issues: list[str] | None = None,
        missing_fields: list[str] | None = None,
    ):
        super().__init__(message)
        self.issues = issues or []
        self.missing_fields = missing_fields or []


class ExternalServiceCode(str, Enum):
    """外部服务错误码"""
    AI_UNAVAILABLE = "AI_UNAVAILABLE"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    ANALYSIS_FAILED = "ANALYSIS_FAILED"


MANUAL_FALLBACK_HINT = "可改为手动添加字段/手动选择映射继续操作。"


class ExternalServiceError(FidelityError):
    """外部服务错误（可降级为手动流程）"""

    def __init__(self, code: ExternalServiceCode, message: str):
        self.code = code
        self.message = message
        self.hint = MANUAL_FALLBACK_HINT
        super().__init__(f"{message} {self.hint}")


class RenderError(FidelityError):
    """源文件无法读取/渲染"""
    pass


class BatchError(FidelityError):
    """批量生成错误（任务终止）"""
    pass


class StateTransitionError(FidelityError):
    """非法的制作流程状态迁移"""
    pass


class CancelledError(FidelityError):
    """流程已被用户放弃"""
    pass
