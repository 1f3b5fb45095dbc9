"""Domain packages, one per bounded context (schemas / repository / service / router)"""
