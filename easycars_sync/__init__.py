"""EasyCars sync engine: keeps dealership stock and leads consistent with EasyCars."""
