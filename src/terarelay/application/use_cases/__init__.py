from .lookup_share import LookupShareUseCase
from .resolve_share import ResolveShareUseCase
from .stream_share import StreamShareUseCase, build_stream_params

__all__ = [
    "LookupShareUseCase",
    "ResolveShareUseCase",
    "StreamShareUseCase",
    "build_stream_params",
]
