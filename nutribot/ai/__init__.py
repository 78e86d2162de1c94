from .clients import OpenAIBackend, parse_json_content

__all__ = ["OpenAIBackend", "parse_json_content"]
