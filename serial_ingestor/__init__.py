"""
serial-ingestor: frames telegrams out of a serial byte stream and publishes
them to a message queue.
"""

__version__ = "1.0.0"
