"""
FastAPI dependencies returning the shared services wired onto app.state in main.create_app().
"""
from fastapi import Request

from costengine.billing.cost_management_client import CostManagementClient
from costengine.services.cool_data_assumptions import CoolDataAssumptionsResolver
from costengine.services.cost_formula_engine import CostFormulaEngine
from costengine.services.cost_reconciler import CostReconciler
from costengine.services.metrics_normalizer import MetricsNormalizer
from costengine.services.storage_cost_calculators import AzureFilesCostCalculator, ManagedDiskCostCalculator


def get_cost_engine(request: Request) -> CostFormulaEngine:
    return request.app.state.cost_engine


def get_cost_reconciler(request: Request) -> CostReconciler:
    return request.app.state.cost_reconciler


def get_cost_management_client(request: Request) -> CostManagementClient:
    return request.app.state.cost_management_client


def get_metrics_normalizer(request: Request) -> MetricsNormalizer:
    return request.app.state.metrics_normalizer


def get_assumptions_resolver(request: Request) -> CoolDataAssumptionsResolver:
    return request.app.state.assumptions_resolver


def get_azure_files_calculator(request: Request) -> AzureFilesCostCalculator:
    return request.app.state.azure_files_calculator


def get_managed_disk_calculator(request: Request) -> ManagedDiskCostCalculator:
    return request.app.state.managed_disk_calculator
