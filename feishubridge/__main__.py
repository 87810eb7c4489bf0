"""
feishubridge模块的入口点

当使用 `python -m feishubridge` 命令运行时，会执行此文件。
它导入并启动CLI应用程序。
"""

from feishubridge.cli.commands import app

if __name__ == "__main__":
    app()
