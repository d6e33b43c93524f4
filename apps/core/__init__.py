# apps/core/__init__.py

"""
Core - Controle de acesso e ciclo de vida das identidades

Contém:
- Identity Store (allow-list e identidades)
- Autenticação por segredo compartilhado e tokens de sessão assinados
- Motor de autorização (Allow / Deny com motivo)
- Coordenador de ciclo de vida (mutações e cascatas transacionais)
- Comandos de seed e limpeza
"""
