"""
SnippetJS - Deep Stack Runner
The parser, the identifier check and the interpreter all recurse once per
nesting level, and a JS call costs about a dozen Python frames. Those phases
run on a worker thread whose C stack and frame limit are sized for MAX_DEPTH
frames, so snippet recursion is bounded by gas rather than by the host's
default limit of 1000 frames.
"""

import sys
import threading

# Python frames available to one phase. At roughly 12 frames per JS call
# that is well over ten thousand nested calls.
MAX_DEPTH = 200_000

# Generous upper bound on the C stack one Python frame can take.
_FRAME_BYTES = 2048

_state = threading.local()


def call_deep(fn, *args, **kwargs):
    """Call fn(*args, **kwargs) on a deep-stack thread and return its result.

    Exceptions raised by fn are re-raised in the caller. Calls made from
    inside a deep-stack thread (nested executeToken runs) execute inline.
    """
    if getattr(_state, "deep", False):
        return fn(*args, **kwargs)

    outcome = {}

    def worker():
        _state.deep = True
        try:
            outcome["value"] = fn(*args, **kwargs)
        except BaseException as e:
            outcome["error"] = e

    old_limit = sys.getrecursionlimit()
    old_size = threading.stack_size(MAX_DEPTH * _FRAME_BYTES)
    try:
        sys.setrecursionlimit(max(old_limit, MAX_DEPTH))
        thread = threading.Thread(target=worker, name="snippetjs-deep", daemon=True)
        thread.start()
    finally:
        threading.stack_size(old_size)
    try:
        thread.join()
    finally:
        sys.setrecursionlimit(old_limit)

    if "error" in outcome:
        raise outcome["error"]
    return outcome["value"]
