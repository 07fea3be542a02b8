"""Costing snapshot store and calculation engine."""
from hospital_costing.services.factory import CostingServices, create_costing_services

__all__ = ["CostingServices", "create_costing_services"]
