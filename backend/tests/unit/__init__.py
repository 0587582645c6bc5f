"""Unit tests - engine, services and scheduler against mongomock"""
