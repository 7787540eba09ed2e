"""Account quota and resource accounting service"""
