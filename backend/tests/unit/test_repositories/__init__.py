"""Repository tests"""
