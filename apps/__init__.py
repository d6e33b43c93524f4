# apps/__init__.py

"""
Aplicações Django do rastreador de projetos e tarefas

Este pacote contém:
- core: allow-list, identidades, sessões, permissões e ciclo de vida
"""

__version__ = '0.1.0'
