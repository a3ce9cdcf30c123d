import click
from pathlib import Path

from rbibli.sa.repositories import (
    GenreRepository, PublisherRepository, SeriesRepository, AuthorRepository,
    TitleRepository, VolumeRepository
)
from ..utils import library_session, echo_success, echo_field, echo_empty


@click.group()
def catalog():
    """Titles, volumes and their classification"""
    pass


# Genres

@catalog.command(name='add-genre')
@click.argument('name')
@click.option('--description', default=None, help='Free text description')
@click.pass_context
def add_genre(ctx, name: str, description: str):
    """Create a genre called NAME"""
    with library_session(ctx) as session:
        genre = GenreRepository(session).create_genre(name, description=description)
        echo_success(f"Created genre {genre.name} ({genre.id})")


@catalog.command(name='genres')
@click.pass_context
def list_genres(ctx):
    """List genres with their number of titles"""
    with library_session(ctx) as session:
        rows = GenreRepository(session).list_with_title_counts()
        if not rows:
            echo_empty('genres')
            return
        for genre, count in rows:
            click.echo(click.style(genre.name, fg='cyan') + f"  {count} title(s)  " +
                       click.style(genre.id, fg='bright_black'))


@catalog.command(name='delete-genre')
@click.argument('genre_id')
@click.pass_context
def delete_genre(ctx, genre_id: str):
    """Delete a genre; its titles keep existing without a genre"""
    with library_session(ctx) as session:
        detached = GenreRepository(session).delete_genre(genre_id)
        echo_success(f"Deleted genre, {detached} title(s) detached")


# Publishers

@catalog.command(name='add-publisher')
@click.argument('name')
@click.option('--country', default=None)
@click.option('--website', default=None)
@click.option('--founded-year', default=None, type=int)
@click.pass_context
def add_publisher(ctx, name: str, country: str, website: str, founded_year: int):
    """Create a publisher called NAME"""
    with library_session(ctx) as session:
        publisher = PublisherRepository(session).create_publisher(
            name, country=country, website=website, founded_year=founded_year
        )
        echo_success(f"Created publisher {publisher.name} ({publisher.id})")


@catalog.command(name='publishers')
@click.pass_context
def list_publishers(ctx):
    """List publishers with their number of titles"""
    with library_session(ctx) as session:
        rows = PublisherRepository(session).list_with_title_counts()
        if not rows:
            echo_empty('publishers')
            return
        for publisher, count in rows:
            click.echo(click.style(publisher.name, fg='cyan') + f"  {count} title(s)  " +
                       click.style(publisher.id, fg='bright_black'))


@catalog.command(name='delete-publisher')
@click.argument('publisher_id')
@click.pass_context
def delete_publisher(ctx, publisher_id: str):
    with library_session(ctx) as session:
        detached = PublisherRepository(session).delete_publisher(publisher_id)
        echo_success(f"Deleted publisher, {detached} title(s) detached")


# Series

@catalog.command(name='add-series')
@click.argument('name')
@click.option('--description', default=None)
@click.pass_context
def add_series(ctx, name: str, description: str):
    """Create a series called NAME"""
    with library_session(ctx) as session:
        series = SeriesRepository(session).create_series(name, description=description)
        echo_success(f"Created series {series.name} ({series.id})")


@catalog.command(name='series')
@click.pass_context
def list_series(ctx):
    """List series with their number of titles"""
    with library_session(ctx) as session:
        rows = SeriesRepository(session).list_with_title_counts()
        if not rows:
            echo_empty('series')
            return
        for series, count in rows:
            click.echo(click.style(series.name, fg='cyan') + f"  {count} title(s)  " +
                       click.style(series.id, fg='bright_black'))


@catalog.command(name='delete-series')
@click.argument('series_id')
@click.pass_context
def delete_series(ctx, series_id: str):
    with library_session(ctx) as session:
        detached = SeriesRepository(session).delete_series(series_id)
        echo_success(f"Deleted series, {detached} title(s) detached")


# Authors

@catalog.command(name='add-author')
@click.argument('name')
@click.option('--nationality', default=None)
@click.option('--website', default=None)
@click.pass_context
def add_author(ctx, name: str, nationality: str, website: str):
    """Create an author called NAME"""
    with library_session(ctx) as session:
        author = AuthorRepository(session).create_author(name, nationality=nationality, website=website)
        echo_success(f"Created author {author.name} ({author.id})")


@catalog.command(name='authors')
@click.pass_context
def list_authors(ctx):
    """List authors with their number of titles"""
    with library_session(ctx) as session:
        rows = AuthorRepository(session).list_with_title_counts()
        if not rows:
            echo_empty('authors')
            return
        for author, count in rows:
            click.echo(click.style(author.name, fg='cyan') + f"  {count} title(s)  " +
                       click.style(author.id, fg='bright_black'))


# Titles

@catalog.command(name='add-title')
@click.argument('name')
@click.option('--subtitle', default=None)
@click.option('--isbn', default=None)
@click.option('--pages', default=None, type=int)
@click.option('--year', 'publication_year', default=None, type=int, help='Publication year')
@click.option('--language', default=None)
@click.option('--genre-id', default=None)
@click.option('--publisher-id', default=None)
@click.option('--series-id', default=None)
@click.option('--series-number', default=None)
@click.pass_context
def add_title(ctx, name: str, **fields):
    """Create a title called NAME

    Example:
        rbibli catalog add-title "Dune" --isbn 9780441013593 --year 1965
    """
    fields = {key: value for key, value in fields.items() if value is not None}
    with library_session(ctx) as session:
        title = TitleRepository(session).create_title(name, **fields)
        echo_success(f"Created title {title.name} ({title.id})")


@catalog.command(name='titles')
@click.option('--query', '-q', default=None, help='Match against name, subtitle or ISBN')
@click.option('--genre-id', default=None)
@click.option('--limit', default=50, type=int)
@click.pass_context
def list_titles(ctx, query: str, genre_id: str, limit: int):
    """List titles with their number of volumes"""
    with library_session(ctx) as session:
        rows = TitleRepository(session).list_titles(query=query, genre_id=genre_id, limit=limit)
        if not rows:
            echo_empty('titles')
            return
        for title, volume_count in rows:
            click.echo(click.style(title.name, fg='cyan') + f"  {volume_count} volume(s)  " +
                       click.style(title.id, fg='bright_black'))


@catalog.command(name='show-title')
@click.argument('title_id')
@click.pass_context
def show_title(ctx, title_id: str):
    """Show a title with its authors and volumes"""
    with library_session(ctx) as session:
        repo = TitleRepository(session)
        title = repo.get_title_with_details(title_id) or repo.require(title_id)
        click.echo("\n" + click.style(title.name, fg='blue', bold=True))
        echo_field("Subtitle", title.subtitle)
        echo_field("ISBN", title.isbn)
        echo_field("Year", title.publication_year)
        echo_field("Genre", title.genre.name if title.genre else None)
        echo_field("Publisher", title.publisher.name if title.publisher else None)
        echo_field("Series", title.series.name if title.series else None)
        for link in title.title_authors:
            echo_field(link.role.replace('_', ' ').capitalize(), link.author.name)
        for volume in title.volumes:
            state = 'loanable' if volume.loanable else 'not loanable'
            echo_field(f"Copy {volume.copy_number}", f"{volume.barcode} ({volume.condition}, {state})")


@catalog.command(name='delete-title')
@click.argument('title_id')
@click.option('--force/--no-force', default=False, help='Skip confirmation prompt')
@click.pass_context
def delete_title(ctx, title_id: str, force: bool):
    """Delete a title with all its volumes and their loan history"""
    if not force:
        click.confirm(click.style("This deletes every volume of the title. Continue?", fg='yellow'), abort=True)
    with library_session(ctx) as session:
        deleted = TitleRepository(session).delete_title(title_id)
        echo_success(f"Deleted title and {deleted} volume(s)")


@catalog.command(name='link-author')
@click.argument('title_id')
@click.argument('author_id')
@click.option('--role', default='main_author',
              type=click.Choice(['main_author', 'co_author', 'translator', 'illustrator', 'editor']))
@click.option('--order', 'display_order', default=1, type=int)
@click.pass_context
def link_author(ctx, title_id: str, author_id: str, role: str, display_order: int):
    """Attach an author to a title"""
    with library_session(ctx) as session:
        TitleRepository(session).add_author(title_id, author_id, role=role, display_order=display_order)
        echo_success(f"Linked author as {role}")


@catalog.command(name='duplicates')
@click.option('--min-score', default=50.0, type=float, help='Lowest similarity score to report (0-100)')
@click.pass_context
def find_duplicates(ctx, min_score: float):
    """List pairs of titles that look like duplicates"""
    colors = {'high': 'red', 'medium': 'yellow', 'low': 'bright_black'}
    with library_session(ctx) as session:
        pairs = TitleRepository(session).detect_duplicates(min_score=min_score)
        if not pairs:
            echo_empty('duplicates')
            return
        for pair in pairs:
            label = click.style(f"[{pair.confidence.value} {pair.score:.0f}]", fg=colors[pair.confidence.value])
            click.echo(f"{label} {pair.first.name} ({pair.first.id}) ~ {pair.second.name} ({pair.second.id})")
            if pair.reasons:
                click.echo("    " + "; ".join(pair.reasons))


@catalog.command(name='merge-titles')
@click.argument('primary_id')
@click.argument('secondary_id')
@click.option('--force/--no-force', default=False, help='Skip confirmation prompt')
@click.pass_context
def merge_titles(ctx, primary_id: str, secondary_id: str, force: bool):
    """Fold SECONDARY_ID into PRIMARY_ID and delete it"""
    if not force:
        click.confirm(click.style("The secondary title will be deleted. Continue?", fg='yellow'), abort=True)
    with library_session(ctx) as session:
        title = TitleRepository(session).merge_titles(primary_id, secondary_id)
        echo_success(f"Merged into {title.name} ({title.id})")


@catalog.command(name='set-cover')
@click.argument('title_id')
@click.argument('image', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--resize/--no-resize', default=False, help='Re-encode as a JPEG at most 500px high')
@click.pass_context
def set_cover(ctx, title_id: str, image: Path, resize: bool):
    """Store IMAGE as the cover of a title"""
    with library_session(ctx) as session:
        title = TitleRepository(session).set_cover(title_id, image.read_bytes(), filename=image.name, resize=resize)
        echo_success(f"Stored cover {title.image_filename} ({title.image_mime_type})")


# Volumes

@catalog.command(name='add-volume')
@click.argument('title_id')
@click.argument('barcode')
@click.option('--condition', default='excellent',
              type=click.Choice(['excellent', 'good', 'fair', 'poor', 'damaged']))
@click.option('--loanable/--not-loanable', default=True)
@click.option('--location-id', default=None)
@click.option('--notes', 'individual_notes', default=None)
@click.pass_context
def add_volume(ctx, title_id: str, barcode: str, condition: str, loanable: bool,
               location_id: str, individual_notes: str):
    """Add a physical copy with BARCODE to a title"""
    with library_session(ctx) as session:
        volume = VolumeRepository(session).create_volume(
            title_id, barcode, condition=condition, loanable=loanable,
            location_id=location_id, individual_notes=individual_notes
        )
        echo_success(f"Created copy {volume.copy_number} of {volume.title.name}: {volume.barcode} ({volume.id})")


@catalog.command(name='volumes')
@click.option('--title-id', default=None)
@click.option('--location-id', default=None)
@click.pass_context
def list_volumes(ctx, title_id: str, location_id: str):
    """List volumes"""
    with library_session(ctx) as session:
        repo = VolumeRepository(session)
        volumes = repo.list_volumes(title_id=title_id, location_id=location_id)
        if not volumes:
            echo_empty('volumes')
            return
        for volume in volumes:
            status = click.style('available', fg='green') if repo.is_available(volume.id) \
                else click.style('unavailable', fg='red')
            click.echo(click.style(volume.barcode, fg='cyan') +
                       f"  {volume.title.name} #{volume.copy_number}  {volume.condition}  " + status)


@catalog.command(name='update-volume')
@click.argument('volume_id')
@click.option('--condition', default=None,
              type=click.Choice(['excellent', 'good', 'fair', 'poor', 'damaged']))
@click.option('--loanable', type=click.BOOL, default=None, help='yes or no')
@click.option('--location-id', default=None)
@click.pass_context
def update_volume(ctx, volume_id: str, condition: str, loanable: bool, location_id: str):
    """Change the condition, loanability or location of a volume"""
    fields = {'condition': condition, 'loanable': loanable, 'location_id': location_id}
    fields = {key: value for key, value in fields.items() if value is not None}
    with library_session(ctx) as session:
        volume = VolumeRepository(session).update_volume(volume_id, **fields)
        echo_success(f"Updated {volume.barcode}: {volume.condition}, "
                     f"{'loanable' if volume.loanable else 'not loanable'}")


@catalog.command(name='delete-volume')
@click.argument('volume_id')
@click.pass_context
def delete_volume(ctx, volume_id: str):
    with library_session(ctx) as session:
        VolumeRepository(session).delete_volume(volume_id)
        echo_success("Deleted volume")
