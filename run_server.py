"""Run the retrieval API with uvicorn."""

import socket
import sys

from dotenv import load_dotenv
load_dotenv()

from kb_retrieval.api.config import settings
from kb_retrieval.api.logging_config import setup_logging
setup_logging(settings.log_level)


def is_port_in_use(port):
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex(('localhost', port)) == 0


if __name__ == "__main__":
    port = settings.api_port
    if is_port_in_use(port):
        print(f"Port {port} is already in use; set API_PORT in .env to another port")
        sys.exit(1)

    print("=" * 80)
    print(f"Starting server: http://{settings.api_host}:{port}")
    print("=" * 80)

    import uvicorn

    uvicorn.run(
        "kb_retrieval.api.main:app",
        host=settings.api_host,
        port=port,
        log_level=settings.log_level.lower(),
    )
