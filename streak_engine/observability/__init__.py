"""Prometheus metrics for the streak engine"""
