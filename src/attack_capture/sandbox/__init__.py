"""Disposable container sandbox."""
