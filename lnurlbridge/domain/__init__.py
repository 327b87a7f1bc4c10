"""Domain layer: value objects, enums, wire schemas and events of the LNURL flows."""
