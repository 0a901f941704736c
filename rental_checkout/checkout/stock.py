# module rental_checkout.checkout.stock
"""
Contrôle de stock (lecture seule) auprès du service d'inventaire.
Vérification indicative: le service de réservation refait le contrôle atomique
lors de la création des intentions.
"""
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from . import clients
from .errors import BusinessError, NetworkError
from .models import CartItem

logger = logging.getLogger(__name__)

STOCKED_SERVICE_TYPES = ("equipment", "supply")
UNREACHABLE_ISSUE = "Impossible de vérifier la disponibilité du stock, veuillez réessayer"


@dataclass
class StockReport:
    valid: bool = True
    issues: List[str] = field(default_factory=list)


def item_issues(item: CartItem, service: dict) -> List[str]:
    issues: List[str] = []
    if not service.get("isAvailable", False):
        issues.append(f"{item.name} n'est plus disponible")
    quantity = service.get("quantity")
    if service.get("serviceType") in STOCKED_SERVICE_TYPES and quantity is not None:
        if quantity == 0:
            issues.append(f"{item.name} est en rupture de stock")
        elif quantity < item.quantity:
            issues.append(f"Seulement {quantity} {item.name} disponible(s) (vous en avez {item.quantity} dans le panier)")
    return issues


async def validate(items: Iterable[CartItem], token: Optional[str] = None) -> StockReport:
    """
    Vérifie chaque article séquentiellement.
    - refus pour un article (service inconnu, supprimé): l'article n'est plus disponible
    - inventaire injoignable: une seule anomalie générique, le contrôle échoue (fail closed)
    """
    report = StockReport()
    for item in items:
        try:
            service = await clients.fetch_service(item.id, token)
        except BusinessError as e:
            logger.info("stock.validate item=%s rejected: %s", item.id, e.message)
            report.issues.append(f"{item.name} n'est plus disponible")
            continue
        except NetworkError:
            logger.warning("stock.validate inventory unreachable at item=%s", item.id)
            return StockReport(valid=False, issues=[UNREACHABLE_ISSUE])
        report.issues.extend(item_issues(item, service))
    report.valid = not report.issues
    return report
