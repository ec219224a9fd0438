"""
dineledger - booking and review orchestration for the restaurant booking program

Logging stays silent until the host application calls
dineledger.core.logging_config.LoggingConfig.configure().
"""
import logging

logging.getLogger("dineledger").addHandler(logging.NullHandler())

__version__ = "0.1.0"
