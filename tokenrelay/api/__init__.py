"""HTTP surface of the relay."""

from tokenrelay.api.app import CHAT_PATH, STREAM_PATH, build_source, create_app

__all__ = ["CHAT_PATH", "STREAM_PATH", "build_source", "create_app"]
