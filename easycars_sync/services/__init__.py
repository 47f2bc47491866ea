"""EasyCars sync services"""
