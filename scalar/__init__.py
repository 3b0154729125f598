"""scalar - 大型仓库 enlistment 管理工具"""

__version__ = "0.3.0"
