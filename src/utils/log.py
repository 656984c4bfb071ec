"""Logging for the enrollment and matching pipeline."""

import logging
import os

from contextlib import contextmanager

from src.config import LOG_FORMAT

logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)


def get_logger(name):
    """Per-module logger; matcher top-k diagnostics go out at DEBUG."""
    return logging.getLogger(name)


@contextmanager
def suppress_fds(fds=(1, 2)):
    """Point the given file descriptors at /dev/null for the duration.

    InsightFace and onnxruntime print provider/model banners from native code
    while `FaceAnalysis` loads, which redirect_stdout cannot catch.
    """
    devnull = os.open(os.devnull, os.O_RDWR)
    saved = {fd: os.dup(fd) for fd in fds}
    try:
        for fd in fds:
            os.dup2(devnull, fd)
        yield
    finally:
        for fd, old in saved.items():
            os.dup2(old, fd)
            os.close(old)
        os.close(devnull)
