#!/usr/bin/env python3
"""
formula_ffi.py

C-compatible allocate/free boundary around the render pipeline.

Python callers:
    result = render_formula(b"x^2", MODE_TEXT, 0)
    if isinstance(result, int):   # negative error code
        ...
    ptr, length = result
    svg = read_svg(ptr, length)
    free_svg(ptr, length)

Foreign callers get two C function pointers (see `entry_points()`):
    int  render_svg(const char *data, size_t len, int mode, int embed,
                    void **out_ptr, size_t *out_len);
    void free_svg(void *ptr, size_t len);

Ownership: a successful call hands the buffer to the caller, who must
release it with exactly one free_svg(ptr, len). Using a pointer after
freeing it, or freeing it twice, is undefined and is not detected. Buffers
are NUL-terminated one byte past `len` for C convenience.

Error codes: 0 ok, and the negative `code` of each formula_errors class
(-1 empty input ... -14 nesting too deep, -99 internal error).
"""
from __future__ import annotations

import ctypes
import logging
import threading
from typing import Union

from config_loader import RenderMode
from formula_errors import InternalRenderError, InvalidArgument, RenderError
from formula_render import render_formula as render_pipeline

logger = logging.getLogger(__name__)

OK = 0
MODE_TEXT = 0
MODE_PATHS = 1

_MODES = {MODE_TEXT: RenderMode.TEXT, MODE_PATHS: RenderMode.PATHS}

# address -> ctypes buffer; keeps every handed-out buffer alive until freed
_BUFFERS: dict[int, ctypes.Array] = {}
_BUFFERS_LOCK = threading.Lock()


def render_formula(
    formula: bytes, mode: int = MODE_TEXT, embed_font: int = 0
) -> Union[tuple[int, int], int]:
    """
    Render and return (pointer, length) of an owned buffer, or a negative
    error code. Never raises.
    """
    try:
        if not isinstance(formula, (bytes, bytearray, memoryview)):
            raise InvalidArgument("formula must be bytes")
        if mode not in _MODES:
            raise InvalidArgument(f"unknown mode {mode!r}")
        if embed_font not in (0, 1):
            raise InvalidArgument(f"embed_font must be 0 or 1, not {embed_font!r}")
        svg = render_pipeline(bytes(formula), _MODES[mode], bool(embed_font))
    except RenderError as err:
        logger.debug("render failed with code %d: %s", err.code, err.message)
        return err.code
    except Exception:
        logger.exception("unexpected failure at the FFI boundary")
        return InternalRenderError.code

    buffer = ctypes.create_string_buffer(svg, len(svg) + 1)
    address = ctypes.addressof(buffer)
    with _BUFFERS_LOCK:
        _BUFFERS[address] = buffer
    return address, len(svg)


def free_svg(ptr: int, length: int) -> None:
    """Release a buffer returned by render_formula."""
    with _BUFFERS_LOCK:
        _BUFFERS.pop(ptr, None)


def read_svg(ptr: int, length: int) -> bytes:
    """Copy `length` bytes out of a live buffer."""
    return ctypes.string_at(ptr, length)


def live_buffer_count() -> int:
    with _BUFFERS_LOCK:
        return len(_BUFFERS)


# ---------------- C entry points ---------------------------------------------

RENDER_SVG_FUNC = ctypes.CFUNCTYPE(
    ctypes.c_int,
    ctypes.c_void_p,
    ctypes.c_size_t,
    ctypes.c_int,
    ctypes.c_int,
    ctypes.POINTER(ctypes.c_void_p),
    ctypes.POINTER(ctypes.c_size_t),
)
FREE_SVG_FUNC = ctypes.CFUNCTYPE(None, ctypes.c_void_p, ctypes.c_size_t)


def _c_render_svg(data, length, mode, embed, out_ptr, out_len) -> int:
    if not out_ptr or not out_len or (not data and length):
        return InvalidArgument.code
    raw = ctypes.string_at(data, length) if length else b""
    result = render_formula(raw, mode, embed)
    if isinstance(result, int):
        return result
    out_ptr[0], out_len[0] = result
    return OK


def _c_free_svg(ptr, length) -> None:
    if ptr:
        free_svg(ptr, length)


c_render_svg = RENDER_SVG_FUNC(_c_render_svg)
c_free_svg = FREE_SVG_FUNC(_c_free_svg)


def entry_points() -> dict[str, int]:
    """Raw addresses of the C-callable functions, for a host process."""
    return {
        "render_svg": ctypes.cast(c_render_svg, ctypes.c_void_p).value,
        "free_svg": ctypes.cast(c_free_svg, ctypes.c_void_p).value,
    }
