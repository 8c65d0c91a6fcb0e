"""Domain layer: pure models, rules, and algorithms. No I/O."""
