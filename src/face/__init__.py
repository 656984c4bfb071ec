"""Face enrollment gate and descriptor matching (detector/codec/quality/matcher/service).

The core consumes face detection as a capability (`Detector`) and never owns the
reference descriptor store: callers pass it on every call.
"""
