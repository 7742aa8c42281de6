"""Core domain package for marketscope.

Core contains query hashing, filtering, scheduling, message composition and the
deep-link command codec without any HTTP, Telegram or storage-specific code.
"""
