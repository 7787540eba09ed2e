"""Core infrastructure: configuration, logging, persistence, scheduling"""
