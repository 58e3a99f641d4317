import functools
import logging
from typing import Optional
from flask import request
from jsonschema import validate, FormatChecker
from jsonschema import ValidationError as SchemaValidationError

from errors import ValidationError

logger = logging.getLogger(__name__)

TRUE_VALUES = ("true", "1", "yes", "on")

# Rango de los campos numéricos del formulario: coordenadas, escalas y paddings
# caben de sobra y el grafo nunca recibe notación científica
MAX_FORM_NUMBER = 1000000
MIN_FORM_FRACTION = 0.0001


def validate_payload(schema):
    """
    Decorador para validar el payload JSON según un esquema.

    Args:
        schema (dict): Esquema JSON para validación.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated_function(*args, **kwargs):
            payload = request.get_json(silent=True)
            if payload is None:
                raise ValidationError(message="No JSON payload provided",
                                      error_code="missing_json_payload")

            try:
                validate(instance=payload, schema=schema, format_checker=FormatChecker())
            except SchemaValidationError as e:
                path = ".".join(str(p) for p in e.path) if e.path else "payload"
                logger.info(f"Payload inválido en {request.path}: {path} - {e.message}")
                raise ValidationError(message=f"Validation error in {path}",
                                      details={"field": path, "detail": e.message}) from e

            return f(payload, *args, **kwargs)
        return decorated_function
    return decorator


def form_float(form, name: str, default: Optional[float] = None) -> Optional[float]:
    """
    Lee un número de un formulario multipart

    Ausente o en blanco -> default. Los valores se conservan tal cual
    (fracciones y negativos incluidos).

    Raises:
        ValidationError: Si el valor no es numérico
    """
    raw = form.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ValidationError(message=f"Field '{name}' must be a number",
                              details={"field": name, "value": raw}) from e
    if value != value or value in (float("inf"), float("-inf")):
        raise ValidationError(message=f"Field '{name}' must be a finite number",
                              details={"field": name, "value": raw})
    if abs(value) > MAX_FORM_NUMBER or 0 < abs(value) < MIN_FORM_FRACTION:
        raise ValidationError(message=f"Field '{name}' is out of range",
                              details={"field": name, "value": raw,
                                       "max": MAX_FORM_NUMBER, "min_fraction": MIN_FORM_FRACTION})
    return int(value) if value.is_integer() else value


def form_int(form, name: str) -> Optional[int]:
    value = form_float(form, name)
    if value is None:
        return None
    if not isinstance(value, int):
        raise ValidationError(message=f"Field '{name}' must be an integer",
                              details={"field": name, "value": form.get(name)})
    return value


def form_bool(form, name: str, default: bool = False) -> bool:
    raw = form.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in TRUE_VALUES
