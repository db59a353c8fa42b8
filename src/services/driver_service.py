"""
Driver Service - delivery driver roster and access-code login.

Access codes are plain roster strings compared after trimming and
lowercasing. There is no hashing; the code only selects which zone's route
a driver sees.
"""

from contextlib import nullcontext
from typing import Dict, List, Optional

from src.models import Driver
from src.services.database import session_scope
from src.services.exceptions import DriverNotFound, ValidationError
from src.services.logging_utils import get_service_logger, log_operation
from src.services.snapshot_service import normalize_driver_record

logger = get_service_logger(__name__)


def _normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().lower()


def create_driver(data: Dict, session=None) -> Driver:
    """
    Add a driver to the roster.

    Raises:
        ValidationError: If the name is missing or taken, or the access code
            is already used by another driver
    """
    record = normalize_driver_record(data)

    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        errors = []
        if session.query(Driver.id).filter(Driver.name == record["name"]).first():
            errors.append(f"Driver '{record['name']}' already exists")
        if record["access_code"] and _find_by_code(record["access_code"], session) is not None:
            errors.append("Access code is already assigned to another driver")
        if errors:
            raise ValidationError(errors)

        driver = Driver(**record)
        session.add(driver)
        session.flush()
        log_operation(logger, "create_driver", "success", driver_name=driver.name, zone=driver.zone)
        return driver


def update_driver(name: str, data: Dict, session=None) -> Driver:
    """
    Update phone, zone or access code of a driver.

    Raises:
        DriverNotFound: If no driver has this name
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        driver = session.query(Driver).filter(Driver.name == name).first()
        if driver is None:
            raise DriverNotFound(name)

        record = normalize_driver_record({"name": name, **data})
        if "phone" in data:
            driver.phone = record["phone"]
        if "zone" in data:
            driver.zone = record["zone"]
        if "access_code" in data or "accessCode" in data:
            driver.access_code = record["access_code"]
        session.flush()
        return driver


def list_drivers(zone: Optional[str] = None, session=None) -> List[Driver]:
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        query = session.query(Driver)
        if zone is not None:
            query = query.filter(Driver.zone == zone)
        return query.order_by(Driver.name).all()


def delete_driver(name: str, session=None) -> None:
    """
    Remove a driver from the roster.

    Raises:
        DriverNotFound: If no driver has this name
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        driver = session.query(Driver).filter(Driver.name == name).first()
        if driver is None:
            raise DriverNotFound(name)
        session.delete(driver)
        log_operation(logger, "delete_driver", "success", driver_name=name)


def _find_by_code(code: str, session) -> Optional[Driver]:
    wanted = _normalize_code(code)
    for driver in session.query(Driver).order_by(Driver.id):
        if driver.access_code and _normalize_code(driver.access_code) == wanted:
            return driver
    return None


def authenticate_driver(code: str, session=None) -> Driver:
    """
    Resolve the driver holding an access code.

    Args:
        code: Code typed by the driver (case and surrounding spaces ignored)

    Returns:
        The matching Driver

    Raises:
        DriverNotFound: If the code is empty or matches nobody
    """
    if not _normalize_code(code):
        raise DriverNotFound("(empty access code)")

    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        driver = _find_by_code(code, session)
        if driver is None:
            log_operation(logger, "authenticate_driver", "rejected")
            raise DriverNotFound("(access code)")
        log_operation(logger, "authenticate_driver", "success", driver_name=driver.name)
        return driver
