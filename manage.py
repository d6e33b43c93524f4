#!/usr/bin/env python
"""
Django's command-line utility for administrative tasks.

Rastreador de projetos e tarefas - controle de acesso por allow-list
"""

import os
import sys


def main():
    """Run administrative tasks."""

    # Configuração padrão para desenvolvimento
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.development')

    try:
        from django.core.management import execute_from_command_line
    except ImportError as exc:
        raise ImportError(
            "Couldn't import Django. Are you sure it's installed and "
            "available on your PYTHONPATH environment variable? Did you "
            "forget to activate a virtual environment?"
        ) from exc

    # Atalhos do projeto
    if len(sys.argv) > 1:
        command = sys.argv[1]

        # Setup inicial: migrações + estáticos + allow-list
        if command == 'setup':
            print("🚀 Configurando o projeto...")

            print("📊 Aplicando migrações...")
            if os.system(f'{sys.executable} manage.py migrate') != 0:
                print("❌ Erro nas migrações")
                return

            print("📁 Coletando arquivos estáticos...")
            os.system(f'{sys.executable} manage.py collectstatic --noinput')

            print("🌱 Liberando o admin principal e a allow-list inicial...")
            if os.system(f'{sys.executable} manage.py seed') == 0:
                print("✅ Setup concluído!")
                print("🔑 Entre com o email do admin principal e o ADMIN_PASSWORD")
            else:
                print("⚠️  Setup parcial: verifique PRIMARY_ADMIN_EMAIL e ALLOWED_USERS")
            return

        elif command == 'backup':
            print("💾 Criando backup do banco...")
            from datetime import datetime
            timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
            backup_file = f"backup_tracker_{timestamp}.json"
            os.system(f'{sys.executable} manage.py dumpdata core --indent 2 > {backup_file}')
            print(f"✅ Backup criado: {backup_file}")
            return

    execute_from_command_line(sys.argv)


if __name__ == '__main__':
    main()
