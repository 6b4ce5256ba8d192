"""Core domain package for chatrelay.

Core contains the chat processing pipeline and its built-in processors
without any world-client, storage or transport code, keeping the business
logic portable.
"""
