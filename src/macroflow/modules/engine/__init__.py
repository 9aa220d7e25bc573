"""
场景执行引擎：块解析之上的控制流解释、条件求值与变量
"""
