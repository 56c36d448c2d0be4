# catalog_sync/commands.py
import json

import click
from flask import Flask

from .services import maintenance
from .services.sync import (
    migrate_product_list,
    migrate_relationships,
    sync_product_list,
    update_all_prices,
    update_file_metafields,
)

store_argument = click.argument("store_name", default="DIAMOND")


def register_commands(app: Flask):
    """`flask <command> STORE` entry points for migrations and one-off jobs."""

    @app.cli.command("sync")
    @store_argument
    @click.option("--frequency", type=click.Choice(["hourly", "halfday", "daily"]), default="halfday")
    def sync_cmd(store_name, frequency):
        sync_product_list(store_name, frequency)

    @app.cli.command("migrate")
    @store_argument
    def migrate_cmd(store_name):
        migrate_product_list(store_name)

    @app.cli.command("migrate-relationships")
    @store_argument
    def migrate_relationships_cmd(store_name):
        migrate_relationships(store_name)

    @app.cli.command("update-file-metafields")
    @store_argument
    def update_file_metafields_cmd(store_name):
        update_file_metafields(store_name)

    @app.cli.command("update-prices")
    @store_argument
    def update_prices_cmd(store_name):
        update_all_prices(store_name)

    @app.cli.command("check-missing")
    @store_argument
    def check_missing_cmd(store_name):
        maintenance.check_missing_products(store_name)

    @app.cli.command("check-duplicates")
    @store_argument
    def check_duplicates_cmd(store_name):
        maintenance.check_duplicate_products(store_name)

    @app.cli.command("delete-excluded")
    @store_argument
    def delete_excluded_cmd(store_name):
        maintenance.delete_excluded_products(store_name)

    @app.cli.command("delete-thumbnails")
    @store_argument
    def delete_thumbnails_cmd(store_name):
        maintenance.delete_thumbnail_images(store_name)

    @app.cli.command("create-collections")
    @store_argument
    def create_collections_cmd(store_name):
        maintenance.create_store_collections(store_name)

    @app.cli.command("create-menu")
    @store_argument
    def create_menu_cmd(store_name):
        maintenance.create_store_menu(store_name)

    @app.cli.command("rename-collections")
    @store_argument
    @click.option("--titles", "titles_file", type=click.File("r", encoding="utf-8"), required=True,
                  help="JSON list of new titles, in menu order.")
    def rename_collections_cmd(store_name, titles_file):
        maintenance.rename_collections(store_name, json.load(titles_file))
