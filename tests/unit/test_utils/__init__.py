"""Utility tests"""
