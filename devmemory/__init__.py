"""DevMemory 知识图谱引擎"""

__version__ = "0.1.0"
