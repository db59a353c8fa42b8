"""MealRun - prepared-meal ordering, kitchen and delivery routing."""
