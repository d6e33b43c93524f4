# apps/core/management/commands/cleanup.py

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.db import DatabaseError, transaction

from apps.core.models import AllowedUser, Project, Task, User


class Command(BaseCommand):
    help = 'Apaga TODOS os dados (tarefas, projetos, identidades e allow-list) - só em DEBUG'

    def add_arguments(self, parser):
        parser.add_argument(
            '--confirmar',
            action='store_true',
            help='Confirma que você quer apagar todos os dados'
        )

    def handle(self, *args, **options):
        # Verificações de segurança
        if not settings.DEBUG:
            raise CommandError(
                '🚫 BLOQUEADO: Este comando só funciona em modo DEBUG.\n'
                '   Em produção, dados devem ser preservados.'
            )

        if not options['confirmar']:
            self.stdout.write(
                self.style.WARNING(
                    '⚠️  LIMPEZA TOTAL - NADA FOI APAGADO\n'
                    '\n'
                    'Este comando vai:\n'
                    '  • APAGAR todas as tarefas\n'
                    '  • APAGAR todos os projetos\n'
                    '  • APAGAR todas as identidades\n'
                    '  • ESVAZIAR a allow-list\n'
                    '\n'
                    'Para confirmar, execute:\n'
                    '  python manage.py cleanup --confirmar\n'
                )
            )
            return

        self.stdout.write(self.style.ERROR('🔥 Iniciando limpeza total...'))

        try:
            counts = self._limpar()
        except DatabaseError as e:
            raise CommandError(f'Limpeza interrompida, nada foi apagado: {e}') from e

        for label, total in counts.items():
            self.stdout.write(f'  🗑️  {label}: {total}')

        self.stdout.write(
            self.style.SUCCESS(
                '\n🎉 Limpeza concluída!\n'
                'Rode "python manage.py seed" para liberar o admin principal de novo.'
            )
        )

    def _limpar(self):
        """Filhos primeiro, tudo numa transação"""
        with transaction.atomic():
            tasks, _ = Task.objects.all().delete()
            projects, _ = Project.objects.all().delete()
            _, deleted = User.objects.all().delete()
            users = deleted.get(User._meta.label, 0)
            allowed, _ = AllowedUser.objects.all().delete()

        return {
            'Tarefas': tasks,
            'Projetos': projects,
            'Identidades': users,
            'Allow-list': allowed,
        }
