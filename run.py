#!/usr/bin/env python
"""
快捷启动脚本 - 直接运行 FastAPI 应用
使用方法: python run.py 或 ./run.py
"""
import os
import socket
import sys


def is_port_in_use(port: int) -> bool:
    """检查端口是否被占用"""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        try:
            s.bind(("", port))
            return False
        except OSError:
            return True


# 主程序
if __name__ == "__main__":
    import uvicorn

    # 从环境变量获取配置
    port = int(os.getenv("PORT", 8000))
    host = os.getenv("HOST", "0.0.0.0")
    reload = os.getenv("RELOAD", "false").lower() == "true"

    if is_port_in_use(port):
        print(f"❌ Port {port} is already in use. Use a different port: PORT=8001 python {__file__}")
        sys.exit(1)

    print("=" * 60)
    print("🚀 Codeshot snapshot service")
    print("=" * 60)
    print(f"📍 Server: http://{host}:{port}")
    print(f"📚 API Docs: http://localhost:{port}/docs")
    print("=" * 60)

    try:
        uvicorn.run(
            "codeshot.main:app",  # 使用字符串导入以支持 reload
            host=host,
            port=port,
            reload=reload,
            log_level="info"
        )
    except KeyboardInterrupt:
        print("\n👋 Server stopped")
