"""Utility classes shared by the pipeline"""

from .progress import ProgressMonitor

__all__ = ['ProgressMonitor']
