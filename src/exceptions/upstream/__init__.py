from src.exceptions.upstream.decode_error import DecodeError
from src.exceptions.upstream.upstream_unavailable_error import UpstreamUnavailableError

__all__ = ["DecodeError", "UpstreamUnavailableError"]
