"""Laptop Grading System web application."""
