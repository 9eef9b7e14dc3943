"""Registrar core: auctions, schedule, ledger runtime and persistence"""
