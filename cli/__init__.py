"""CLI package for rbibli"""
from .main import cli

__all__ = ['cli']
