"""
Entry point for the Meet Transcriber API.
Starts the FastAPI application with uvicorn.
"""

import sys
import uvicorn

from meet_transcriber.config import settings


def run():
    """Run the Meet Transcriber API server."""
    host = settings.server.host
    port = settings.server.port

    print("\n" + "=" * 60)
    print("MEET TRANSCRIBER API")
    print("=" * 60)
    print(f"🚀 Starting FastAPI application...")
    print(f"📍 Host: {host}:{port}")
    print(f"📚 API Docs: http://{host}:{port}/api/docs")
    print(f"🤖 Bot name: {settings.bot.bot_name} (headless={settings.bot.headless})")
    print(f"📁 Transcripts: {settings.transcripts_dir}")
    print("=" * 60 + "\n")

    uvicorn.run(
        "meet_transcriber.main:app",
        host=host,
        port=port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    try:
        run()
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
    except Exception as e:
        print(f"\n❌ Fatal error: {e}")
        sys.exit(1)
