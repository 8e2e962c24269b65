"""
Serializacion JSON canonica.

Misma entrada logica -> mismo texto, sin importar el orden de las claves.
Se usa para el change-hash y para guardar arrays/objetos como texto.
"""
import json
from typing import Any


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
