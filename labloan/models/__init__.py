from .materials import LiquidMaterial, SolidMaterial, EquipmentMaterial, LabMaterial
from .requests import LoanRequest, RequestLine, DebtEntry, REQUEST_STATUSES
from .movements import StockMovement, MOVEMENT_TYPES
from .notifications import Notification

__all__ = [
    'LiquidMaterial', 'SolidMaterial', 'EquipmentMaterial', 'LabMaterial',
    'LoanRequest', 'RequestLine', 'DebtEntry', 'REQUEST_STATUSES',
    'StockMovement', 'MOVEMENT_TYPES',
    'Notification',
]
