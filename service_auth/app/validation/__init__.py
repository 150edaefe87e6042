"""
Token validation package.

Wraps ``shared.access_token.AccessToken`` for the Auth Service:

- Verifying signed or signed-then-encrypted token strings.
- Mapping InvalidToken / TokenExpired onto a uniform response.
- Projecting verified claims onto a consistent `user_info` object.
- Answering the unauthenticated "is this one of ours" probe, which must
  never be mistaken for verification.
"""
