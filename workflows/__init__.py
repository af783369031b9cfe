"""Workflow definitions module."""

from workflows.sales_sync_workflow import SalesSyncWorkflow, SalesSyncInput

__all__ = ["SalesSyncWorkflow", "SalesSyncInput"]
