"""gobottle - 为 Go 项目准备 GOPATH 工作空间的依赖构建工具"""

__version__ = "0.3.0"
