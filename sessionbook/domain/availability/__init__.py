"""Availability domain - weekly templates, date overrides and the slot resolver"""
