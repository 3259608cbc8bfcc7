# Database schema definitions

USERS_TABLE_SCHEMA = '''
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT UNIQUE NOT NULL,
        email TEXT UNIQUE NOT NULL,
        password_hash TEXT NOT NULL,
        reset_password_token TEXT,
        reset_password_expire INTEGER,  -- epoch milliseconds
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
'''

MEMORIALS_TABLE_SCHEMA = '''
    CREATE TABLE IF NOT EXISTS memorials (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        birth_date TEXT NOT NULL,
        death_date TEXT NOT NULL,
        hometown TEXT,
        profession TEXT,
        epitaph TEXT,
        biography TEXT CHECK (biography IS NULL OR LENGTH(biography) <= 5000),
        main_photo TEXT,         -- singleton slot: /uploads/photos/...
        background_music TEXT,   -- singleton slot: /uploads/audios/...
        background_image TEXT,   -- singleton slot: /uploads/photos/...
        theme TEXT DEFAULT 'warm',
        privacy TEXT NOT NULL DEFAULT 'semi-private'
            CHECK (privacy IN ('public', 'semi-private', 'private', 'restricted')),
        password_hash TEXT,
        created_by INTEGER NOT NULL,
        views INTEGER DEFAULT 0,
        flowers INTEGER DEFAULT 0,
        candles INTEGER DEFAULT 0,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (created_by) REFERENCES users (id)
    )
'''

MEMORIAL_ADMINS_TABLE_SCHEMA = '''
    CREATE TABLE IF NOT EXISTS memorial_admins (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        memorial_id INTEGER NOT NULL,
        user_id INTEGER NOT NULL,
        UNIQUE(memorial_id, user_id),
        FOREIGN KEY (memorial_id) REFERENCES memorials (id) ON DELETE CASCADE,
        FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE
    )
'''

MEMORIAL_PHOTOS_TABLE_SCHEMA = '''
    CREATE TABLE IF NOT EXISTS memorial_photos (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        memorial_id INTEGER NOT NULL,
        url TEXT NOT NULL,
        description TEXT,
        date TEXT,
        category TEXT,
        FOREIGN KEY (memorial_id) REFERENCES memorials (id) ON DELETE CASCADE
    )
'''

MEMORIAL_VIDEOS_TABLE_SCHEMA = '''
    CREATE TABLE IF NOT EXISTS memorial_videos (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        memorial_id INTEGER NOT NULL,
        url TEXT NOT NULL,
        thumbnail TEXT,
        description TEXT,
        uploaded_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (memorial_id) REFERENCES memorials (id) ON DELETE CASCADE
    )
'''

MEMORIAL_AUDIOS_TABLE_SCHEMA = '''
    CREATE TABLE IF NOT EXISTS memorial_audios (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        memorial_id INTEGER NOT NULL,
        url TEXT NOT NULL,
        description TEXT,
        uploaded_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (memorial_id) REFERENCES memorials (id) ON DELETE CASCADE
    )
'''

MEMORIAL_DOCUMENTS_TABLE_SCHEMA = '''
    CREATE TABLE IF NOT EXISTS memorial_documents (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        memorial_id INTEGER NOT NULL,
        url TEXT NOT NULL,
        title TEXT,
        doc_type TEXT,
        uploaded_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (memorial_id) REFERENCES memorials (id) ON DELETE CASCADE
    )
'''

MEMORIAL_TIMELINE_TABLE_SCHEMA = '''
    CREATE TABLE IF NOT EXISTS memorial_timeline (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        memorial_id INTEGER NOT NULL,
        date TEXT,
        title TEXT,
        description TEXT,
        photo TEXT,
        video TEXT,
        is_milestone BOOLEAN DEFAULT 0,
        FOREIGN KEY (memorial_id) REFERENCES memorials (id) ON DELETE CASCADE
    )
'''

MEMORIAL_MESSAGES_TABLE_SCHEMA = '''
    CREATE TABLE IF NOT EXISTS memorial_messages (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        memorial_id INTEGER NOT NULL,
        author TEXT NOT NULL,
        content TEXT NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (memorial_id) REFERENCES memorials (id) ON DELETE CASCADE
    )
'''

MEMORIAL_IMPORTANT_DATES_TABLE_SCHEMA = '''
    CREATE TABLE IF NOT EXISTS memorial_important_dates (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        memorial_id INTEGER NOT NULL,
        date_type TEXT,
        date TEXT,
        description TEXT,
        FOREIGN KEY (memorial_id) REFERENCES memorials (id) ON DELETE CASCADE
    )
'''

POSTS_TABLE_SCHEMA = '''
    CREATE TABLE IF NOT EXISTS posts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL CHECK (LENGTH(title) <= 100),
        content TEXT NOT NULL CHECK (LENGTH(content) <= 5000),
        category TEXT NOT NULL DEFAULT 'sharing'
            CHECK (category IN ('sharing', 'support', 'question', 'other')),
        author_id INTEGER NOT NULL,
        author_name TEXT NOT NULL,
        like_count INTEGER DEFAULT 0,     -- always COUNT(post_likes)
        comment_count INTEGER DEFAULT 0,  -- always COUNT(post_comments)
        views INTEGER DEFAULT 0,
        is_pinned BOOLEAN DEFAULT 0,
        is_locked BOOLEAN DEFAULT 0,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (author_id) REFERENCES users (id)
    )
'''

POST_LIKES_TABLE_SCHEMA = '''
    CREATE TABLE IF NOT EXISTS post_likes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        post_id INTEGER NOT NULL,
        user_id INTEGER NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        UNIQUE(post_id, user_id),
        FOREIGN KEY (post_id) REFERENCES posts (id) ON DELETE CASCADE,
        FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE
    )
'''

POST_COMMENTS_TABLE_SCHEMA = '''
    CREATE TABLE IF NOT EXISTS post_comments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        post_id INTEGER NOT NULL,
        author_id INTEGER NOT NULL,
        author_name TEXT NOT NULL,
        content TEXT NOT NULL CHECK (LENGTH(content) <= 1000),
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (post_id) REFERENCES posts (id) ON DELETE CASCADE,
        FOREIGN KEY (author_id) REFERENCES users (id) ON DELETE CASCADE
    )
'''

ALL_TABLE_SCHEMAS = [
    USERS_TABLE_SCHEMA,
    MEMORIALS_TABLE_SCHEMA,
    MEMORIAL_ADMINS_TABLE_SCHEMA,
    MEMORIAL_PHOTOS_TABLE_SCHEMA,
    MEMORIAL_VIDEOS_TABLE_SCHEMA,
    MEMORIAL_AUDIOS_TABLE_SCHEMA,
    MEMORIAL_DOCUMENTS_TABLE_SCHEMA,
    MEMORIAL_TIMELINE_TABLE_SCHEMA,
    MEMORIAL_MESSAGES_TABLE_SCHEMA,
    MEMORIAL_IMPORTANT_DATES_TABLE_SCHEMA,
    POSTS_TABLE_SCHEMA,
    POST_LIKES_TABLE_SCHEMA,
    POST_COMMENTS_TABLE_SCHEMA,
]
