"""Chat domain - client/admin conversations"""
