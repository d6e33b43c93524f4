# apps/core/management/commands/seed.py

from django.core.management.base import BaseCommand, CommandError

from apps.core.config import get_provider
from apps.core.exceptions import CoreError
from apps.core.lifecycle import LifecycleCoordinator
from apps.core.models import Role
from apps.core.store import IdentityStore


class Command(BaseCommand):
    help = 'Carrega a allow-list inicial (ALLOWED_USERS + admin principal) e materializa as identidades'

    def add_arguments(self, parser):
        parser.add_argument(
            '--email',
            help='Libera apenas este email (em vez da lista configurada)'
        )
        parser.add_argument(
            '--role',
            choices=Role.values,
            default=Role.MEMBER,
            help='Papel do email passado em --email'
        )

    def handle(self, *args, **options):
        """
        Executa o seed de forma idempotente

        Rodar duas vezes seguidas não muda nada na segunda: entradas existentes
        só têm o papel alinhado e identidades existentes são reaproveitadas.
        """
        provider = get_provider()
        store = IdentityStore()
        coordinator = LifecycleCoordinator(store=store, provider=provider)

        try:
            entries = self._entradas(provider, options)

            self.stdout.write(f'🌱 Liberando {len(entries)} email(s)...')
            for entry in entries:
                self._liberar(store, coordinator, entry['email'], entry['role'])

        except CoreError as e:
            raise CommandError(f'Seed interrompido: {e.message}') from e

        self.stdout.write(self.style.SUCCESS('🎉 Seed concluído!'))

    # =================== MÉTODOS PRIVADOS ===================

    def _entradas(self, provider, options):
        if options.get('email'):
            return [{'email': options['email'], 'role': options['role']}]

        entries = provider.bootstrap_allowed_users()
        primary = provider.primary_admin_email()

        # O admin principal sempre entra, sempre como ADMIN
        entries = [e for e in entries if e['email'] != primary]
        entries.insert(0, {'email': primary, 'role': Role.ADMIN})
        return entries

    def _liberar(self, store, coordinator, email, role):
        if coordinator.provider.is_primary_admin(email):
            role = Role.ADMIN

        existing = store.find_allow_list_entry(email)
        entry = store.upsert_allow_list_entry(email, role)
        identity = coordinator.login_reconcile(entry.email, entry.role)

        if existing is None:
            self.stdout.write(f'  ✅ {entry.email} adicionado como {entry.role}')
        else:
            self.stdout.write(f'  ℹ️  {entry.email} já estava liberado ({identity.role})')
