"""
品牌文档保真模板系统 - 后端核心模块

模块结构：
- config/     运行期配置与渲染配置加载
- models/     数据模型定义（模板/字段/任务/数据集）
- authoring/  模板制作（源文件栅格化/制作状态机）
- gateway/    外部识别服务适配（字段检测/表头映射/AI填充）
- render/     坐标换算与叠加渲染
- store/      模板仓库与版本历史
- generation/ 单文档生成
- pipeline/   批量生成/任务管理/打包
"""

__version__ = "0.1.0"
