"""Service tests"""
