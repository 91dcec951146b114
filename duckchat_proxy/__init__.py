"""OpenAI-compatible chat completions proxy for duckchat.

The application itself lives in ``duckchat_proxy.main``; importing it loads
the configuration file.
"""

__version__ = "0.1.0"
