from .report import GUID, Report

__all__ = ["GUID", "Report"]
