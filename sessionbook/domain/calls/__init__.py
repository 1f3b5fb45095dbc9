"""Calls domain - signaling rooms, room events and the client-side call session"""
