"""Export JSON schemas for DraftPlan, Itinerary and BookingResult."""

import json
from pathlib import Path

from backend.outing.models import BookingResult, DraftPlan, Itinerary

SCHEMAS = {
    "DraftPlan": DraftPlan,
    "Itinerary": Itinerary,
    "BookingResult": BookingResult,
}


def main() -> None:
    """Export schemas to docs/schemas/."""
    schemas_dir = Path("docs/schemas")
    schemas_dir.mkdir(parents=True, exist_ok=True)

    for name, model in SCHEMAS.items():
        # Draft plans arrive camelCase, so export the aliased form
        schema = model.model_json_schema(by_alias=True)
        path = schemas_dir / f"{name}.schema.json"
        with open(path, "w") as f:
            json.dump(schema, f, indent=2)
        print(f"Exported {name} schema to {path}")


if __name__ == "__main__":
    main()
