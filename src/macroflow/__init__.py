"""
macroflow - 设备自动化场景执行引擎
"""
__version__ = "0.1.0"
