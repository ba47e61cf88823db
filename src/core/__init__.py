"""Core domain package for notifilter.

Core contains rule evaluation, deduplication, alert dispatch and helper
supervision without any OS-specific code, keeping the business logic
portable and testable with fakes.
"""
