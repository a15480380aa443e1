"""
Provider dump import: record parsing/validation and batch inserts.
"""
