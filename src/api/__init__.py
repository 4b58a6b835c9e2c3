"""REST API for Game Server Deploy"""
