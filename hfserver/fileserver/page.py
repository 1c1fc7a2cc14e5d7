import html
import json
import urllib.parse

INDEX_HEAD = '''<!DOCTYPE html>
<html>
<head>
    <title>File Server</title>
    <meta charset="UTF-8">
    <script src="https://unpkg.com/htmx.org@1.9.10"></script>
    <style>
        body { font-family: sans-serif; }
        .container { max-width: 800px; margin: auto; padding: 20px; }
        .file-list { list-style-type: none; padding: 0; }
        .file-item { display: flex; align-items: center; margin-bottom: 5px; }
        .file-item input { margin-right: 10px; }
        .file-item a { flex-grow: 1; }
        .file-meta { padding-left: 1em; color: #555; white-space: nowrap; }
        .actions { margin-top: 20px; }
        .upload-form { margin-top: 20px; border-top: 1px solid #ccc; padding-top: 20px; }
        progress { width: 100%; }
        .download-link { color: #0066cc; text-decoration: underline; cursor: pointer; }
        .custom-file-upload {
            display: inline-block;
            padding: 6px 12px;
            cursor: pointer;
            background-color: #f8f8f8;
            border: 1px solid #ccc;
            border-radius: 4px;
        }
        .file-input { display: none; }
        .download-notification {
            position: fixed;
            bottom: 20px;
            right: 20px;
            background-color: #4CAF50;
            color: white;
            padding: 15px;
            border-radius: 5px;
            box-shadow: 0 2px 5px rgba(0,0,0,0.2);
            display: none;
            z-index: 1000;
            animation: fadeOut 3s forwards;
            animation-delay: 2s;
        }
        @keyframes fadeOut {
            from { opacity: 1; }
            to { opacity: 0; }
        }
    </style>
</head>
<body>
    <div class="container">
        <h1>Files</h1>
        <form>
            <ul class="file-list">
'''

INDEX_TAIL = '''            </ul>
            <div class="actions">
                <button type="button" hx-post="/delete" hx-target="body" hx-include="[name='files']:checked" hx-confirm="Are you sure you want to delete the selected files?">Delete Selected</button>
            </div>
        </form>

        <div class="upload-form">
            <h2>Upload Files</h2>
            <form hx-encoding="multipart/form-data" hx-post="/upload" hx-target="body">
                <label class="custom-file-upload">
                    <input type="file" name="files" multiple
                           class="file-input"
                           hx-trigger="change"
                           hx-encoding="multipart/form-data"
                           hx-post="/upload"
                           hx-target="body">
                    Upload files
                </label>
                <progress id="progress" value="0" max="100" style="display: none;"></progress>
            </form>
        </div>
    </div>

    <div id="download-notification" class="download-notification"></div>

    <script>
      document.body.addEventListener('htmx:xhr:progress', function(evt) {
        var progress = document.getElementById('progress');
        progress.style.display = 'block';
        progress.value = evt.detail.loaded / evt.detail.total * 100;
      });
      document.body.addEventListener('htmx:afterRequest', function(evt) {
        var progress = document.getElementById('progress');
        if (progress) {
            setTimeout(function() {
                progress.style.display = 'none';
                progress.value = 0;
            }, 1000);
        }
      });

      function showDownloadStarted(filename) {
        var notification = document.getElementById('download-notification');
        notification.textContent = 'Downloading: ' + filename;
        notification.style.display = 'block';
        notification.style.opacity = '1';
        notification.style.animation = 'none';

        // restart the fade out
        setTimeout(function() {
          notification.style.animation = 'fadeOut 3s forwards';
        }, 100);

        setTimeout(function() {
          notification.style.display = 'none';
        }, 5000);
      }
    </script>
</body>
</html>
'''


def render_file_row(view):
    name = html.escape(view.name)
    href = '/download/' + urllib.parse.quote(view.name)
    onclick = html.escape('showDownloadStarted(%s)' % json.dumps(view.name))
    return (
        '                <li class="file-item">\n'
        f'                    <input type="checkbox" name="files" value="{name}">\n'
        f'                    <a href="{html.escape(href)}" class="download-link" hx-boost="false" onclick="{onclick}">{name}</a>\n'
        f'                    <span class="file-meta">{view.size_mb} &nbsp; {view.modified}</span>\n'
        '                </li>\n'
    )


def render_index(files):
    """
    Builds the listing page.

    Args:
        files: iterable of FileView records, consumed once

    Returns:
        str: HTML content
    """
    rows = [render_file_row(view) for view in files]
    if not rows:
        rows.append('                <li>No files found.</li>\n')
    return INDEX_HEAD + ''.join(rows) + INDEX_TAIL
