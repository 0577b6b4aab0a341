from .tool import Tool, dump_arguments

__all__ = [
    "Tool",
    "dump_arguments",
]
