"""
Treasury services
Store-backed records (authorization, spending, policies, agents, session keys,
claim history) and the chain / token-discovery readers.
"""
