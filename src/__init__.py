"""Perpguard trading engine"""
