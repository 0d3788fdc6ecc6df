"""Pure domain helpers shared by engines and modules."""
