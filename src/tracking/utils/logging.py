"""Logging configuration for the Tracking domain."""

import logging

import structlog


def get_logger(name: str):
    return structlog.get_logger(name)


# Suppress noisy library loggers
logging.getLogger("protean").setLevel(logging.WARNING)
