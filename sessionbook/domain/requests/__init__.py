"""Service request domain - public intake and the admin booking ledger"""
