"""Streaming reconstruction: partial JSON, frames, reconciler and wire adapters."""

from .adapters import NDJSONAdapter, PrefixTextAdapter, WireAdapter, encode_frames
from .codec import OrjsonCodec, get_codec
from .diff import regressions, same
from .frame import FrameEmitter, StreamFrame
from .partial import UNPARSEABLE, open_serialization, parse_partial, repair
from .reconciler import StreamReconciler

__all__ = [
    # Partial parsing
    "UNPARSEABLE", "parse_partial", "repair", "open_serialization",
    # Frames
    "StreamFrame", "FrameEmitter", "regressions", "same",
    # Reconciler
    "StreamReconciler",
    # Wire
    "WireAdapter", "PrefixTextAdapter", "NDJSONAdapter", "encode_frames",
    "OrjsonCodec", "get_codec",
]
